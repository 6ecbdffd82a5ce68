"""
Assessment Intelligence — data validation and statistical scoring for
property tax assessments.

Architecture: Rule-based validation → Chunked batch processing → Statistical analysis
Philosophy:  Missing data means "not enough to say", never an exception.
"""

__version__ = "1.0.0"
