"""
Exporters for extracted transactions: summary totals, TSV and Excel.
Everything is produced in memory; nothing is written to disk.
"""
import io
from typing import List

import pandas as pd

from core.exceptions import ExportError
from core.logger import setup_logger
from core.schema import TransactionRecord, TransactionSummary

logger = setup_logger(__name__)

EXPORT_COLUMNS = ["Date", "Description", "Amount", "Category", "Notes"]
_FIELDS = ["date", "description", "amount", "category", "notes"]

SHEET_NAME = "Transactions"


def transactions_to_dataframe(transactions: List[TransactionRecord]) -> pd.DataFrame:
    """
    Build a DataFrame with one row per transaction, in the given order.

    Args:
        transactions: Extracted transactions

    Returns:
        DataFrame with the export columns
    """
    rows = [
        [getattr(txn, field, None) for field in _FIELDS]
        for txn in transactions
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def build_summary(transactions: List[TransactionRecord]) -> TransactionSummary:
    """
    Compute transaction count, income and spending totals.

    Income is the sum of positive amounts, spending the sum of negative ones.
    """
    df = transactions_to_dataframe(transactions)
    amounts = pd.to_numeric(df["Amount"], errors="coerce").fillna(0.0)
    return TransactionSummary(
        total_transactions=len(df),
        total_income=round(float(amounts[amounts > 0].sum()), 2),
        total_spending=round(float(amounts[amounts < 0].sum()), 2),
    )


def _sanitize(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).replace("\t", " ").replace("\r", " ").replace("\n", " ")


def export_to_tsv(transactions: List[TransactionRecord]) -> str:
    """
    Export transactions as tab-separated text for pasting into spreadsheets.
    Tabs and line breaks inside text fields are replaced with spaces.

    Args:
        transactions: Extracted transactions

    Returns:
        TSV string with a header row
    """
    df = transactions_to_dataframe(transactions)
    lines = ["\t".join(EXPORT_COLUMNS)]
    for row in df.itertuples(index=False):
        lines.append("\t".join(_sanitize(value) for value in row))
    return "\n".join(lines)


def export_to_excel(transactions: List[TransactionRecord]) -> bytes:
    """
    Export transactions to an in-memory Excel workbook.

    Args:
        transactions: Extracted transactions

    Returns:
        XLSX file content

    Raises:
        ExportError: If the workbook cannot be written
    """
    df = transactions_to_dataframe(transactions)
    logger.info(f"Exporting {len(df)} transactions to Excel")

    buffer = io.BytesIO()
    try:
        with pd.ExcelWriter(buffer, engine="xlsxwriter") as writer:
            df.to_excel(writer, sheet_name=SHEET_NAME, index=False)

            workbook = writer.book
            worksheet = writer.sheets[SHEET_NAME]

            amount_format = workbook.add_format({"num_format": "#,##0.00"})
            amount_idx = EXPORT_COLUMNS.index("Amount")

            # Approximate auto-fit
            for idx, col in enumerate(df.columns):
                max_len = max(
                    df[col].astype(str).map(len).max() if len(df) else 0,
                    len(str(col))
                )
                cell_format = amount_format if idx == amount_idx else None
                worksheet.set_column(idx, idx, min(max_len + 2, 60), cell_format)

        return buffer.getvalue()

    except Exception as e:
        logger.error(f"Failed to export Excel: {e}")
        raise ExportError(
            "Failed to export to Excel",
            details={"transactions": len(df), "error": str(e)}
        ) from e
