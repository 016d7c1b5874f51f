import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_container(tmp_path: Path, catalog=None, name: str = "t.db"):
    from ipsm.application.container import build_container

    return build_container(tmp_path / name, catalog)


def add_customer(c, company: str = "Acme Co.", contact: str = "Somchai"):
    from ipsm.domain.models import CustomerRequest

    return c.customers.create_customer(CustomerRequest(company_name=company, contact_name=contact))


def add_product(c, name: str = "Shirt", category: str = "Shirts", color: str = "White", size: str = "L"):
    from ipsm.domain.models import ProductRequest

    return c.products.create_product(ProductRequest(name=name, category=category, color=color, size=size))
