"""
Instruction prompt and output schema for transaction extraction.
"""
from typing import Any, Dict

from core.schema import CATEGORIES


def build_extraction_prompt() -> str:
    """
    Build the fixed instruction sent alongside the page images.

    Returns:
        Prompt text
    """
    return """You are an expert financial data extraction tool. Your task is to analyze the provided image(s) of one or more bank statements and extract all transactional data.

Please adhere to the following rules strictly:
1.  Identify and list every individual transaction from all provided statements.
2.  Combine transactions from all documents into a single, continuous list.
3.  Ignore all non-transactional information such as headers, footers, summary sections, bank contact details, and marketing materials.
4.  For each transaction, extract the required fields.
5.  The final output must be a valid JSON array of objects, where each object represents a single transaction. Do not include any text, explanation, or markdown formatting before or after the JSON array."""


def create_response_schema() -> Dict[str, Any]:
    """
    Create the response schema for Gemini structured output.
    Every transaction object must carry all five fields.

    Returns:
        Schema dictionary in Gemini's OpenAPI subset
    """
    categories = ", ".join(f"'{label}'" for label in CATEGORIES)
    return {
        "type": "ARRAY",
        "items": {
            "type": "OBJECT",
            "properties": {
                "date": {
                    "type": "STRING",
                    "description": "Transaction date in YYYY-MM-DD format."
                },
                "description": {
                    "type": "STRING",
                    "description": "The full transaction description or title."
                },
                "amount": {
                    "type": "NUMBER",
                    "description": (
                        "Transaction amount. Use a negative number for expenses/debits, "
                        "and a positive number for deposits/credits."
                    )
                },
                "category": {
                    "type": "STRING",
                    "description": f"A relevant category like {categories}."
                },
                "notes": {
                    "type": "STRING",
                    "description": "Any relevant notes if available, otherwise an empty string."
                }
            },
            "required": ["date", "description", "amount", "category", "notes"]
        }
    }
