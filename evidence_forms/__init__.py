"""
Evidence request form engine.

Dynamic DVR / time-frame form model, validation, drafts and the
Streamlit front end for the CCTV recovery request form.
"""

__version__ = "1.0.0"
