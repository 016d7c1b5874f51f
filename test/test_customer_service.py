from pathlib import Path

import pytest

from conftest import add_customer, make_container
from ipsm.domain.errors import ConflictError, NotFoundError, ValidationError
from ipsm.domain.models import CustomerRequest


def test_codes_continue_from_highest(tmp_path: Path):
    c = make_container(tmp_path)
    first = add_customer(c)
    c.customers.create_customer(CustomerRequest(company_name="Fixed"), customer_code="C-0040")
    after = add_customer(c, company="Later")

    assert first.customer_code == "C-0001"
    assert after.customer_code == "C-0041"


def test_fixed_code_collision(tmp_path: Path):
    c = make_container(tmp_path)
    add_customer(c)
    with pytest.raises(ConflictError, match="Customer code 'C-0001' already exists"):
        c.customers.create_customer(CustomerRequest(company_name="Dup"), customer_code="C-0001")


def test_name_required(tmp_path: Path):
    c = make_container(tmp_path)
    with pytest.raises(ValidationError):
        c.customers.create_customer(CustomerRequest(company_name="", contact_name=" "))


def test_display_name_falls_back_to_contact(tmp_path: Path):
    c = make_container(tmp_path)
    cust = c.customers.create_customer(CustomerRequest(company_name="", contact_name="Somying"))
    assert cust.display_name == "Somying"


def test_update_get_by_code_and_delete(tmp_path: Path):
    c = make_container(tmp_path)
    cust = add_customer(c)

    c.customers.update_customer(cust.id, CustomerRequest(company_name="Acme Ltd.", phone="02-000-0000"))
    stored = c.customers.get_by_code(cust.customer_code)
    assert stored.company_name == "Acme Ltd."
    assert stored.phone == "02-000-0000"
    assert stored.customer_code == cust.customer_code

    c.customers.delete_customer(cust.id)
    assert c.customers.list_customers() == []
    with pytest.raises(NotFoundError):
        c.customers.get_customer(cust.id)


def test_missing_name_fields_are_treated_as_blank(tmp_path: Path):
    c = make_container(tmp_path)
    cust = c.customers.create_customer(CustomerRequest(company_name=None, contact_name="Somying"))
    assert cust.company_name == ""
    assert cust.display_name == "Somying"

    updated = c.customers.update_customer(cust.id, CustomerRequest(company_name="Beta Ltd.", contact_name=None))
    assert updated.company_name == "Beta Ltd."
    assert updated.contact_name == ""
