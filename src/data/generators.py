"""
Synthetic Data Generator

Generates realistic retail data for demos and local development.
Includes:
- Stores across regions
- Customers with segments and loyalty tiers
- Products across categories with price and cost
- Sales lines with seasonal volume and basket sizes
- Customer and product changes that produce SCD Type 2 versions

Every generator takes a seed so the same dataset can be rebuilt.
"""

from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

import numpy as np
import polars as pl
from faker import Faker


# =============================================================================
# CONFIGURATION
# =============================================================================

CATEGORIES = [
    ("Electronics", ["Phones", "Laptops", "Headphones", "Cameras"]),
    ("Apparel", ["Shirts", "Pants", "Shoes", "Jackets"]),
    ("Home", ["Kitchen", "Bedding", "Decor", "Furniture"]),
    ("Sports", ["Fitness", "Outdoor", "Cycling", "Team Sports"]),
    ("Grocery", ["Snacks", "Beverages", "Pantry", "Frozen"]),
]

PRICE_RANGES = {
    "Electronics": (40.0, 1500.0),
    "Apparel": (10.0, 250.0),
    "Home": (15.0, 900.0),
    "Sports": (10.0, 600.0),
    "Grocery": (1.0, 40.0),
}

BRANDS = ["Northwind", "Contoso", "Fabrikam", "Tailspin", "Adventure Works", "Litware", "Proseware"]

REGIONS = {
    "Northeast": ["NY", "MA", "PA", "NJ"],
    "Southeast": ["FL", "GA", "NC", "VA"],
    "Midwest": ["IL", "OH", "MI", "MN"],
    "West": ["CA", "WA", "OR", "CO"],
    "Southwest": ["TX", "AZ", "NM", "NV"],
}

STORE_TYPES = [("Flagship", 0.1), ("Standard", 0.6), ("Outlet", 0.2), ("Express", 0.1)]
STORE_SIZES = ["Small", "Medium", "Large"]

CUSTOMER_SEGMENTS = [("Consumer", 0.6), ("Small Business", 0.25), ("Corporate", 0.15)]
CUSTOMER_TIERS = ["Bronze", "Silver", "Gold", "Platinum"]

PAYMENT_METHODS = [("credit_card", 0.45), ("debit_card", 0.25), ("cash", 0.2), ("mobile_wallet", 0.1)]

TAX_RATE = 0.08

# Monthly volume multipliers (Jan..Dec), heavier in November/December
SEASONALITY = [0.8, 0.8, 0.9, 0.95, 1.0, 1.0, 1.0, 1.05, 1.0, 1.05, 1.3, 1.6]


def _choice(rng: np.random.Generator, weighted: List[Tuple[str, float]]) -> str:
    values, weights = zip(*weighted)
    p = np.array(weights) / sum(weights)
    return str(rng.choice(values, p=p))


# =============================================================================
# GENERATORS
# =============================================================================

class StoreGenerator:
    """Generate store locations spread over the regions"""

    def __init__(self, seed: int = 42):
        self.fake = Faker("en_US")
        self.fake.seed_instance(seed)
        self.rng = np.random.default_rng(seed)

    def generate(self, n: int = 10) -> pl.DataFrame:
        """Generate n stores"""
        region_names = list(REGIONS)
        stores = []
        for i in range(n):
            region = region_names[i % len(region_names)]
            city = self.fake.city()
            stores.append({
                "store_id": f"S{i + 1:03d}",
                "store_name": f"{city} {_choice(self.rng, STORE_TYPES)}",
                "store_type": _choice(self.rng, STORE_TYPES),
                "store_size": str(self.rng.choice(STORE_SIZES)),
                "city": city,
                "state": str(self.rng.choice(REGIONS[region])),
                "region": region,
                "country": "USA",
                "postal_code": self.fake.postcode(),
                "opening_date": self.fake.date_between(start_date=date(2010, 1, 1), end_date=date(2022, 12, 31)),
                "manager_name": self.fake.name(),
                "is_active": bool(self.rng.random() > 0.05),
            })
        return pl.DataFrame(stores)


class CustomerGenerator:
    """Generate customers with segments and loyalty tiers"""

    def __init__(self, seed: int = 42):
        self.fake = Faker("en_US")
        self.fake.seed_instance(seed)
        self.rng = np.random.default_rng(seed)

    def generate(self, n: int = 500) -> pl.DataFrame:
        """Generate n customers"""
        customers = []
        for i in range(n):
            name = self.fake.name()
            customers.append({
                "customer_id": f"C{i + 1:06d}",
                "customer_name": name,
                "email": self.fake.email(),
                "phone": self.fake.numerify("###-###-####"),
                "customer_segment": _choice(self.rng, CUSTOMER_SEGMENTS),
                "customer_tier": str(self.rng.choice(CUSTOMER_TIERS, p=[0.5, 0.3, 0.15, 0.05])),
                "registration_date": self.fake.date_between(start_date=date(2018, 1, 1), end_date=date(2022, 12, 31)),
                "city": self.fake.city(),
                "state": self.fake.state_abbr(),
                "country": "USA",
                "postal_code": self.fake.postcode(),
            })
        return pl.DataFrame(customers)


class ProductGenerator:
    """Generate a product catalog with prices and costs"""

    def __init__(self, seed: int = 42):
        self.fake = Faker("en_US")
        self.fake.seed_instance(seed)
        self.rng = np.random.default_rng(seed)

    def generate(self, n: int = 200) -> pl.DataFrame:
        """Generate n products"""
        products = []
        for i in range(n):
            category, subcategories = CATEGORIES[int(self.rng.integers(len(CATEGORIES)))]
            subcategory = str(self.rng.choice(subcategories))
            low, high = PRICE_RANGES[category]
            unit_price = round(float(self.rng.uniform(low, high)), 2)
            unit_cost = round(unit_price * float(self.rng.uniform(0.35, 0.75)), 2)

            products.append({
                "product_id": f"P{i + 1:05d}",
                "product_name": f"{self.fake.word().title()} {subcategory[:-1] if subcategory.endswith('s') else subcategory}",
                "product_description": self.fake.sentence(nb_words=12),
                "category": category,
                "subcategory": subcategory,
                "brand": str(self.rng.choice(BRANDS)),
                "unit_price": unit_price,
                "unit_cost": unit_cost,
                "supplier_name": self.fake.company(),
            })
        return pl.DataFrame(products)


class ChangeGenerator:
    """Generate attribute changes for existing dimension members"""

    def __init__(self, seed: int = 42):
        self.rng = np.random.default_rng(seed)

    def customer_changes(self, customers_df: pl.DataFrame, fraction: float = 0.1) -> List[Dict]:
        """Tier upgrades and moves for a fraction of customers"""
        changes = []
        for row in self._sample(customers_df, fraction):
            tier_index = CUSTOMER_TIERS.index(row["customer_tier"])
            if tier_index + 1 < len(CUSTOMER_TIERS) and self.rng.random() < 0.7:
                changes.append({"customer_id": row["customer_id"], "customer_tier": CUSTOMER_TIERS[tier_index + 1]})
            else:
                changes.append({"customer_id": row["customer_id"], "customer_segment": _choice(self.rng, CUSTOMER_SEGMENTS)})
        return changes

    def product_changes(self, products_df: pl.DataFrame, fraction: float = 0.1) -> List[Dict]:
        """Price changes of -20%..+15% for a fraction of products"""
        changes = []
        for row in self._sample(products_df, fraction):
            factor = float(self.rng.uniform(0.8, 1.15))
            changes.append({"product_id": row["product_id"], "unit_price": round(row["unit_price"] * factor, 2)})
        return changes

    def _sample(self, df: pl.DataFrame, fraction: float) -> List[Dict]:
        n = max(1, int(len(df) * fraction)) if len(df) else 0
        indices = self.rng.choice(len(df), size=n, replace=False) if n else []
        return [df.row(int(i), named=True) for i in sorted(indices)]


class SalesGenerator:
    """Generate sales lines with seasonal daily volume and multi-line orders"""

    def __init__(
        self,
        customers_df: pl.DataFrame,
        products_df: pl.DataFrame,
        stores_df: pl.DataFrame,
        seed: int = 42,
    ):
        self.rng = np.random.default_rng(seed)
        self.customer_ids = customers_df["customer_id"].to_list()
        self.products = products_df.select(["product_id", "unit_price"]).to_dicts()
        self.store_ids = stores_df.filter(pl.col("is_active"))["store_id"].to_list() or stores_df["store_id"].to_list()

    def generate(
        self,
        start: date,
        end: date,
        orders_per_day: int = 20,
        price_overrides: Optional[Dict[str, float]] = None,
    ) -> pl.DataFrame:
        """
        Generate sales lines for every day in [start, end].

        Args:
            start: First sale date
            end: Last sale date
            orders_per_day: Mean number of orders per day before seasonality
            price_overrides: product_id -> unit price to charge instead of list price

        Returns:
            DataFrame with one row per order line
        """
        prices = {p["product_id"]: p["unit_price"] for p in self.products}
        prices.update(price_overrides or {})
        product_ids = list(prices)

        lines = []
        order_seq = 0
        day = start
        while day <= end:
            weekend_boost = 1.25 if day.weekday() >= 5 else 1.0
            n_orders = int(self.rng.poisson(orders_per_day * SEASONALITY[day.month - 1] * weekend_boost))

            for _ in range(n_orders):
                order_seq += 1
                order_id = f"ORD-{day:%Y%m%d}-{order_seq:06d}"
                customer_id = str(self.rng.choice(self.customer_ids))
                store_id = str(self.rng.choice(self.store_ids))
                payment_method = _choice(self.rng, PAYMENT_METHODS)
                timestamp = datetime.combine(day, time(hour=int(self.rng.integers(8, 22)), minute=int(self.rng.integers(60))))

                basket = min(len(product_ids), int(self.rng.geometric(0.5)))
                for product_id in self.rng.choice(product_ids, size=basket, replace=False):
                    product_id = str(product_id)
                    quantity = int(self.rng.integers(1, 5))
                    unit_price = prices[product_id]
                    gross = quantity * unit_price
                    discount = round(gross * 0.1, 2) if self.rng.random() < 0.15 else 0.0
                    tax = round((gross - discount) * TAX_RATE, 2)

                    lines.append({
                        "order_id": order_id,
                        "sale_date": day,
                        "customer_id": customer_id,
                        "product_id": product_id,
                        "store_id": store_id,
                        "quantity": quantity,
                        "unit_price": unit_price,
                        "discount_amount": discount,
                        "tax_amount": tax,
                        "payment_method": payment_method,
                        "transaction_timestamp": timestamp,
                    })
            day += timedelta(days=1)

        return pl.DataFrame(lines)


class InventoryGenerator:
    """Generate end-of-day stock snapshots"""

    def __init__(self, products_df: pl.DataFrame, stores_df: pl.DataFrame, seed: int = 42):
        self.rng = np.random.default_rng(seed)
        self.product_ids = products_df["product_id"].to_list()
        self.store_ids = stores_df["store_id"].to_list()

    def generate(self, snapshot_date: date, coverage: float = 0.3) -> pl.DataFrame:
        """One snapshot per sampled (product, store) pair for snapshot_date"""
        snapshots = []
        for store_id in self.store_ids:
            for product_id in self.product_ids:
                if self.rng.random() > coverage:
                    continue
                on_hand = int(self.rng.integers(0, 300))
                allocated = int(self.rng.integers(0, min(on_hand, 20) + 1))
                snapshots.append({
                    "snapshot_date": snapshot_date,
                    "product_id": product_id,
                    "store_id": store_id,
                    "quantity_on_hand": on_hand,
                    "quantity_allocated": allocated,
                    "reorder_level": int(self.rng.integers(10, 50)),
                    "reorder_quantity": int(self.rng.integers(50, 200)),
                })
        return pl.DataFrame(snapshots)


# =============================================================================
# MAIN GENERATOR
# =============================================================================

class DataGenerator:
    """Build a complete, reproducible demo dataset"""

    def __init__(self, seed: int = 42):
        self.seed = seed

    def generate_all(
        self,
        n_stores: int = 10,
        n_customers: int = 500,
        n_products: int = 200,
    ) -> Dict[str, pl.DataFrame]:
        """Generate the dimension frames"""
        return {
            "stores": StoreGenerator(self.seed).generate(n_stores),
            "customers": CustomerGenerator(self.seed).generate(n_customers),
            "products": ProductGenerator(self.seed).generate(n_products),
        }
