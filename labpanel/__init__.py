"""
Lab Panel Extraction API: biomarkers and patient details from scanned lab reports
"""
__version__ = "1.0.0"
