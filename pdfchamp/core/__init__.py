"""
Core business logic for PDFChamp.
"""
