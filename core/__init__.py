"""
Core modules for bank statement extraction.

This package contains:
- config: Application configuration and settings
- exceptions: Custom exception classes
- exporters: Summary, TSV and Excel export
- logger: Logging configuration
- rendering: PDF/image page rendering and the shared PDF backend
- schema: Pydantic models for documents, pages and transactions
"""
