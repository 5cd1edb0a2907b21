from typing import Iterable, List, Literal, Optional

from backend.models import Product


def filter_products(
    products: Iterable[Product],
    query: str = "",
    category: Optional[str] = None,
) -> List[Product]:
    """
    Filter products for the browse page.

    Args:
        products: Products to filter, order is kept.
        query: Case-insensitive substring matched against name, description
               and category. Empty means no text filter.
        category: Exact category, or None for all.

    Returns:
        List[Product]: products matching both filters.
    """
    needle = (query or "").lower()
    result = []
    for p in products:
        if needle and not (
            needle in p.name.lower()
            or needle in p.description.lower()
            or needle in p.category.lower()
        ):
            continue
        if category and p.category != category:
            continue
        result.append(p)
    return result


def format_price(amount: int, currency: str = "Rs.") -> str:
    """Whole currency units with thousands separators: 3500 -> 'Rs. 3,500'."""
    return f"{currency} {amount:,}"


def stock_badge(stock: int) -> str:
    if stock <= 0:
        return "Out of Stock"
    if stock <= 5:
        return f"Only {stock} left"
    return "In Stock"


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Generate a Markdown table.

    Args:
        headers: List of column headers, or None to use first row as headers.
        rows: List of rows, each a list of strings.
        aligns: List of alignments ('l', 'c', 'r') for each column.
                Defaults to all center ('c').

    Returns:
        str: Markdown formatted table.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = list(map(str, headers))
    rows = [list(map(str, row)) for row in rows]

    num_cols = len(headers)
    if aligns is None:
        aligns = ["c"] * num_cols
    elif len(aligns) != num_cols:
        raise ValueError("Length of aligns must match number of headers.")

    align_map = {"l": ":---", "c": ":---:", "r": "---:"}

    lines = ["| " + " | ".join(headers) + " |"]
    lines.append("| " + " | ".join(align_map[a] for a in aligns) + " |")
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return "\n".join(lines)


def parse_product_form(
    name: str,
    description: str,
    price: str,
    stock: str,
    category: str,
    image_url: str = "",
) -> dict:
    """
    Validate admin product form fields.
    Returns keyword arguments for create_product/update_product,
    raises ValueError with a user facing message otherwise.
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Name is required.")
    try:
        price_val = int(str(price).strip())
        stock_val = int(str(stock).strip())
    except ValueError:
        raise ValueError("Price and stock must be whole numbers.")
    if price_val < 0 or stock_val < 0:
        raise ValueError("Price and stock cannot be negative.")
    if not category:
        raise ValueError("Category is required.")
    return {
        "name": name,
        "description": (description or "").strip(),
        "price": price_val,
        "image_url": (image_url or "").strip(),
        "stock": stock_val,
        "category": category,
    }
