"""Number rendering shared by prompts and narratives (Indonesian locale)."""


def format_currency(amount: float) -> str:
    """Render an amount as whole Rupiah, e.g. ``Rp 1.250.000``."""
    rounded = int(round(amount or 0))
    sign = "-" if rounded < 0 else ""
    grouped = f"{abs(rounded):,}".replace(",", ".")
    return f"{sign}Rp {grouped}"


def format_percentage(value: float) -> str:
    return f"{(value or 0) * 100:.1f}%"


def format_quantity(qty: float) -> str:
    qty = qty or 0
    return str(int(qty)) if float(qty).is_integer() else f"{qty:g}"
