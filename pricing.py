from typing import Iterable, Optional


def effective_price(price: float, sale_price: Optional[float]) -> float:
    if sale_price is not None and sale_price < price:
        return sale_price
    return price


def active_sale_price(product: dict) -> Optional[float]:
    """The product's sale price, or None when it is not on sale."""
    if product.get("on_sale") and product.get("sale_price") is not None:
        return float(product["sale_price"])
    return None


def product_effective_price(product: dict) -> float:
    return effective_price(float(product["price"]), active_sale_price(product))


def line_total(item: dict) -> float:
    return effective_price(item["price"], item.get("sale_price")) * int(item["quantity"])


def items_total(items: Iterable[dict]) -> float:
    """Total for cart lines or order snapshots, rounded to cents."""
    return round(sum(line_total(item) for item in items), 2)


def percentage_off(product: dict) -> float:
    sale_price = active_sale_price(product)
    price = float(product.get("price") or 0)
    if sale_price is not None and price > 0 and sale_price < price:
        return (price - sale_price) / price * 100
    return 0
