# utils.py
import datetime
import logging

import pandas as pd
from reportlab.graphics.barcode.code128 import Code128
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

logger = logging.getLogger("cashier.utils")

TOP_PRODUCTS = 5

TRANSACTION_COLUMNS = ["id", "created_at", "customer_email", "items", "subtotal", "tax", "total"]
ITEM_COLUMNS = ["transaction_id", "product_id", "product", "quantity", "price_at_time", "revenue"]


def _format_date(timestamp):
    if not timestamp:
        return ""
    try:
        return datetime.datetime.fromisoformat(timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return timestamp


def generate_txt_receipt(transaction, file_path: str, currency="$", store=None,
                         cash_amount=None, change=None):
    """Write a plain text receipt for a completed transaction."""
    store = store or {}
    with open(file_path, 'w', encoding='utf-8') as f:
        if store.get("store_name"):
            f.write(f"{store['store_name']}\n")
            for line in store.get("store_lines", []):
                f.write(f"{line}\n")
            f.write("=" * 40 + "\n")
        f.write(f"Date: {_format_date(transaction.created_at)}\n")
        f.write(f"Transaction ID: {transaction.id}\n")
        if transaction.customer_email:
            f.write(f"Customer: {transaction.customer_email}\n")
        f.write("-" * 40 + "\n")
        f.write("Item               QTY    Price     Total\n")
        for item in transaction.items:
            f.write(f"{item.product_name[:17]:17} {item.quantity:4}  "
                    f"{currency}{item.price_at_time:7.2f} {currency}{item.line_total:8.2f}\n")
        f.write("-" * 40 + "\n")
        f.write(f"Subtotal:     {currency}{transaction.subtotal:10.2f}\n")
        f.write(f"Tax:          {currency}{transaction.tax:10.2f}\n")
        f.write(f"Total:        {currency}{transaction.total:10.2f}\n")
        if cash_amount is not None:
            f.write(f"Cash:         {currency}{cash_amount:10.2f}\n")
        if change is not None:
            f.write(f"Change:       {currency}{change:10.2f}\n")
        f.write("-" * 40 + "\n")
        f.write("Thank you for your business!\n")
    return file_path


def generate_pdf_receipt(transaction, file_path: str, currency="$", store=None,
                         cash_amount=None, change=None):
    """Generate a PDF receipt using ReportLab, with the transaction id as a barcode."""
    store = store or {}
    doc = SimpleDocTemplate(file_path, pagesize=letter)
    elements = []

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name='Centered', parent=styles['Normal'], alignment=1))

    elements.append(Paragraph(store.get("store_name", "Receipt"), styles['Heading1']))
    for line in store.get("store_lines", []):
        elements.append(Paragraph(line, styles['Centered']))
    elements.append(Spacer(1, 0.2 * inch))

    elements.append(Paragraph(f"Date: {_format_date(transaction.created_at)}", styles['Normal']))
    elements.append(Paragraph(f"Transaction ID: {transaction.id}", styles['Normal']))
    if transaction.customer_email:
        elements.append(Paragraph(f"Customer: {transaction.customer_email}", styles['Normal']))
    elements.append(Spacer(1, 0.2 * inch))

    data = [["Item", "Qty", "Price", "Total"]]
    for item in transaction.items:
        data.append([item.product_name, str(item.quantity),
                     f"{currency}{item.price_at_time:.2f}", f"{currency}{item.line_total:.2f}"])
    n_items = len(data)

    data.append(["Subtotal:", "", "", f"{currency}{transaction.subtotal:.2f}"])
    data.append(["Tax:", "", "", f"{currency}{transaction.tax:.2f}"])
    data.append(["Total:", "", "", f"{currency}{transaction.total:.2f}"])
    if cash_amount is not None:
        data.append(["Cash:", "", "", f"{currency}{cash_amount:.2f}"])
    if change is not None:
        data.append(["Change:", "", "", f"{currency}{change:.2f}"])

    table = Table(data, colWidths=[2.5*inch, 1*inch, 1*inch, 1*inch])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (3, 0), colors.grey),
        ('TEXTCOLOR', (0, 0), (3, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (3, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (3, 0), 12),
        ('GRID', (0, 0), (-1, n_items - 1), 1, colors.black),
        ('ALIGN', (1, 1), (3, -1), 'RIGHT'),
        ('FONTNAME', (0, n_items + 2), (3, n_items + 2), 'Helvetica-Bold'),
    ]))
    elements.append(table)
    elements.append(Spacer(1, 0.4 * inch))

    elements.append(Code128(str(transaction.id), barHeight=0.5 * inch, barWidth=1.2,
                            humanReadable=True))
    elements.append(Spacer(1, 0.2 * inch))
    elements.append(Paragraph("Thank you for your business!", styles['Centered']))

    doc.build(elements)
    return file_path


def transactions_to_frame(transactions):
    """One row per transaction."""
    rows = [{
        "id": t.id,
        "created_at": t.created_at,
        "customer_email": t.customer_email or "",
        "items": sum(i.quantity for i in t.items),
        "subtotal": float(t.subtotal),
        "tax": float(t.tax),
        "total": float(t.total),
    } for t in transactions]
    return pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)


def items_to_frame(transactions):
    """One row per sold line, revenue at the price of the sale."""
    rows = [{
        "transaction_id": t.id,
        "product_id": i.product_id,
        "product": i.product_name,
        "quantity": i.quantity,
        "price_at_time": float(i.price_at_time),
        "revenue": float(i.line_total),
    } for t in transactions for i in t.items]
    return pd.DataFrame(rows, columns=ITEM_COLUMNS)


def summarize_sales(transactions):
    """Totals, transaction count, average sale and the best products by revenue."""
    df = transactions_to_frame(transactions)
    if df.empty:
        return {"total_sales": 0.0, "num_transactions": 0, "average_sale": 0.0, "top_products": []}

    items = items_to_frame(transactions)
    top = []
    if not items.empty:
        grouped = (items.groupby("product_id")
                   .agg(product=("product", "first"),
                        quantity=("quantity", "sum"),
                        revenue=("revenue", "sum"))
                   .sort_values("revenue", ascending=False, kind="stable")
                   .head(TOP_PRODUCTS))
        top = [{"product": r.product, "quantity": int(r.quantity), "revenue": round(float(r.revenue), 2)}
               for r in grouped.itertuples()]

    return {
        "total_sales": round(float(df["total"].sum()), 2),
        "num_transactions": len(df),
        "average_sale": round(float(df["total"].mean()), 2),
        "top_products": top,
    }


def generate_sales_report(db, start_date=None, end_date=None, file_path=None, format='csv'):
    """Generate a sales report for a given date range."""
    transactions = db.list_transactions(start_date, end_date)
    if not transactions:
        return None, "No sales data found for the specified period."

    df = transactions_to_frame(transactions)
    summary = summarize_sales(transactions)
    dates = pd.to_datetime(df["created_at"]).dt.date
    summary["start_date"] = start_date or dates.min()
    summary["end_date"] = end_date or dates.max()

    if file_path:
        if format.lower() == 'excel':
            with pd.ExcelWriter(file_path) as writer:
                df.to_excel(writer, index=False, sheet_name='Sales')
                items_to_frame(transactions).to_excel(writer, index=False, sheet_name='Items')
        else:
            df.to_csv(file_path, index=False)
        logger.info("Sales report written to %s", file_path)

    return df, summary
