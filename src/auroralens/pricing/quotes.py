"""
Unit prices for one engine and instance class.

``PriceQuote.from_price_list`` reads the bulk RDS price-list document
(``products`` + ``terms.OnDemand`` + ``terms.Reserved``) for a single
region. Fetching and caching that document is up to the price source.
"""

from collections.abc import Callable

from loguru import logger
from pydantic import BaseModel, Field

from auroralens.errors import MalformedCatalogEntry

RESERVED_UNITS = ("Hrs", "Quantity")


def pricing_engine_name(engine: str) -> str:
    """Price-list ``databaseEngine`` attribute for an engine identifier."""
    return "Aurora PostgreSQL" if engine == "aurora-postgresql" else "Aurora MySQL"


def reserved_key(term: str, option: str, unit: str) -> str:
    """Key of a reserved price, e.g. ``1yr-All Upfront-Quantity``."""
    return f"{term}-{option}-{unit}"


class PriceQuote(BaseModel):
    """
    Read-only price inputs for the cost comparator (USD).

    ``on_demand_hourly`` and ``reserved`` are absent for serverless
    instances.
    """

    per_acu_hour: float = Field(..., ge=0)
    per_acu_hour_io_optimized: float = Field(..., ge=0)
    per_gb_month: float = Field(..., ge=0)
    per_gb_month_io_optimized: float = Field(..., ge=0)
    per_million_io: float = Field(..., ge=0)
    on_demand_hourly: float | None = Field(None, ge=0)
    on_demand_hourly_io_optimized: float | None = Field(None, ge=0)
    reserved: dict[str, float] = Field(
        default_factory=dict, description="Reserved prices keyed '<term>-<purchase option>-<unit>'"
    )

    def reserved_price(self, term: str, option: str, unit: str) -> float:
        """
        Look up one reserved price.

        Raises:
            MalformedCatalogEntry: If the tier is not in the quote
        """
        key = reserved_key(term, option, unit)
        try:
            return self.reserved[key]
        except KeyError as e:
            raise MalformedCatalogEntry(f"Reserved price {key!r} not found") from e

    @classmethod
    def from_price_list(
        cls, price_list: dict, engine: str, instance_class: str | None = None
    ) -> "PriceQuote":
        """
        Extract the prices for an engine and, optionally, a provisioned class.

        Args:
            price_list: Bulk price-list document for one region
            engine: Engine identifier (``aurora-postgresql`` or ``aurora-mysql``)
            instance_class: ``db.`` class; None or ``db.serverless`` skips
                instance prices

        Returns:
            PriceQuote

        Raises:
            MalformedCatalogEntry: If an expected SKU or price is missing
        """
        database_engine = pricing_engine_name(engine)
        products = list(price_list.get("products", {}).values())
        terms = price_list.get("terms", {})
        on_demand = terms.get("OnDemand", {})

        def find(label: str, predicate: Callable[[dict], bool]) -> str:
            for product in products:
                attributes = product.get("attributes", {})
                if attributes.get("databaseEngine") == database_engine and predicate(product):
                    return product["sku"]
            raise MalformedCatalogEntry(f"No {label} SKU for {database_engine}")

        def family(name: str, usage_flag: str, flagged: bool, field: str = "usagetype"):
            return lambda p: (
                p.get("productFamily") == name
                and (usage_flag in p["attributes"].get(field, "")) == flagged
            )

        def on_demand_price(sku: str) -> float:
            try:
                offer = next(iter(on_demand[sku].values()))
                dimension = next(iter(offer["priceDimensions"].values()))
                return float(dimension["pricePerUnit"]["USD"])
            except (KeyError, StopIteration, ValueError) as e:
                raise MalformedCatalogEntry(f"No on-demand price for SKU {sku}") from e

        quote = {
            "per_acu_hour": on_demand_price(
                find("ServerlessV2", family("ServerlessV2", "IOOptimized", False))
            ),
            "per_acu_hour_io_optimized": on_demand_price(
                find("ServerlessV2 I/O-Optimized", family("ServerlessV2", "IOOptimized", True))
            ),
            "per_gb_month": on_demand_price(
                find("storage", family("Database Storage", "IO-Optimized", False))
            ),
            "per_gb_month_io_optimized": on_demand_price(
                find("I/O-Optimized storage", family("Database Storage", "IO-Optimized", True))
            ),
            "per_million_io": on_demand_price(
                find("I/O", family("System Operation", "IOUsage", True))
            )
            * 1_000_000,
        }

        if instance_class and instance_class != "db.serverless":

            def instance(io_optimized: bool):
                storage = family("Database Instance", "IO Optimization", io_optimized, field="storage")
                return lambda p: storage(p) and p["attributes"].get("instanceType") == instance_class

            sku = find(f"{instance_class} instance", instance(False))
            sku_io = find(f"{instance_class} I/O-Optimized instance", instance(True))
            quote["on_demand_hourly"] = on_demand_price(sku)
            quote["on_demand_hourly_io_optimized"] = on_demand_price(sku_io)
            quote["reserved"] = _reserved_prices(terms.get("Reserved", {}).get(sku, {}))

        logger.debug(f"Extracted price quote for {database_engine} {instance_class or 'serverless'}")
        return cls(**quote)


def _reserved_prices(offers: dict) -> dict[str, float]:
    prices = {}
    for offer in offers.values():
        attributes = offer.get("termAttributes", {})
        term = attributes.get("LeaseContractLength")
        option = attributes.get("PurchaseOption")
        for dimension in offer.get("priceDimensions", {}).values():
            if dimension.get("unit") in RESERVED_UNITS:
                key = reserved_key(term, option, dimension["unit"])
                prices[key] = float(dimension["pricePerUnit"]["USD"])
    return prices
