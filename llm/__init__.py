"""
Gemini integration for transaction extraction.

This package contains:
- client: Gemini REST client wrapper
- decode: Response decoding and validation
- prompts: Extraction prompt and response schema
"""
