"""
Service layer for business logic.

This package contains the payload assembler and the statement service
that orchestrates rendering, extraction and decoding.
"""
