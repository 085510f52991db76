# service/pricing_service.py
from dataclasses import dataclass


@dataclass
class PriceQuote:
    server_count: int
    price_per_server: float
    subtotal: float
    discount_percent: float
    discount_amount: float
    total: float

    def to_dict(self):
        return {
            "server_count": self.server_count,
            "price_per_server": self.price_per_server,
            "subtotal": self.subtotal,
            "discount_percent": self.discount_percent,
            "discount_amount": self.discount_amount,
            "total": self.total,
            "summary": format_price_summary(self),
        }


def applicable_discount(server_count, discount_tiers) -> float:
    """Highest discount among the tiers whose ``min_servers`` is reached."""
    tiers = sorted(
        discount_tiers or [], key=lambda t: t.get("min_servers", 0), reverse=True
    )
    best = 0.0
    for tier in tiers:
        if server_count >= tier.get("min_servers", 0):
            best = max(best, float(tier.get("discount_percent", 0)))
    return best


def calculate_price(price_per_server, server_count, discount_tiers=None) -> PriceQuote:
    server_count = max(int(server_count or 0), 0)
    price = float(price_per_server or 0)
    subtotal = round(price * server_count, 2)
    discount_percent = min(applicable_discount(server_count, discount_tiers), 100.0)
    discount_amount = round(subtotal * discount_percent / 100, 2)
    total = round(max(subtotal - discount_amount, 0.0), 2)
    return PriceQuote(
        server_count=server_count,
        price_per_server=price,
        subtotal=subtotal,
        discount_percent=discount_percent,
        discount_amount=discount_amount,
        total=total,
    )


def _pct(value):
    return f"{value:g}"


def format_price_summary(quote: PriceQuote) -> str:
    summary = (
        f"R$ {quote.price_per_server:.2f} × {quote.server_count} "
        f"= R$ {quote.subtotal:.2f}"
    )
    if quote.discount_percent > 0:
        summary += (
            f" - {_pct(quote.discount_percent)}% discount "
            f"(R$ {quote.discount_amount:.2f}) = R$ {quote.total:.2f}"
        )
    return summary
