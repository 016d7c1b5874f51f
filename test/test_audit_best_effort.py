from pathlib import Path

from conftest import add_product
from ipsm.domain.errors import PersistenceError
from ipsm.repositories.sqlite_repo import SqliteRepository
from ipsm.services.stock_audit_service import StockAuditService
from ipsm.services.stock_service import StockService


class FailingAuditRepo(SqliteRepository):
    def create_stock_adjustment(self, adjustment):
        raise PersistenceError("disk full")


def test_stock_change_survives_audit_failure(tmp_path: Path):
    from ipsm.application.container import build_container

    c = build_container(tmp_path / "audit.db")
    p = add_product(c)

    repo = FailingAuditRepo(tmp_path / "audit.db")
    stock = StockService(repo, repo, StockAuditService(repo))

    updated = stock.adjust_stock(p.id, "add", "vat", 4)

    assert updated.stock.vat.remaining == 4
    assert repo.get_product(p.id).stock.actual_stock == 4
    assert repo.count_adjustments_by_product(p.id) == 0


class CapturingAudit(StockAuditService):
    def __init__(self, repo):
        super().__init__(repo)
        self.captured = []

    def capture_before(self, product):
        snap = super().capture_before(product)
        self.captured.append(("before", snap))
        return snap

    def capture_after(self, product):
        snap = super().capture_after(product)
        self.captured.append(("after", snap))
        return snap


def test_movements_are_snapshotted_through_the_audit_service(tmp_path: Path):
    from ipsm.application.container import build_container

    c = build_container(tmp_path / "audit.db")
    p = add_product(c)
    c.stock.adjust_stock(p.id, "add", "nonvat", 5)

    audit = CapturingAudit(c.repo)
    stock = StockService(c.repo, c.repo, audit)
    stock.adjust_stock(p.id, "reduce", "nonvat", 2)

    assert [kind for kind, _ in audit.captured] == ["before", "after"]
    before, after = audit.captured[0][1], audit.captured[1][1]
    assert before.non_vat_remaining == 5
    assert after.non_vat_remaining == 3
    assert after.non_vat_sold == 2

    record = c.stock.all_history(limit=1)[0]
    assert record.before == before
    assert record.after == after
