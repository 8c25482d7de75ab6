"""
Tests for the built-in job kinds: CSV invoice export, CSV payment import,
audit package and the overdue sweep.
"""

import csv
import hashlib
import json
import zipfile
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from recon_batch.domain.types import JobStatus
from recon_batch.orchestrator import build_job_runner, default_task_registry, job_store_for
from recon_batch.services.store import InMemoryJobStore, SqlJobStore
from recon_batch.tasks.audit_tasks import MANIFEST_NAME
from recon_batch.tasks.csv_tasks import INVOICE_EXPORT_COLUMNS
from recon_modules.ap.models import PaymentStatus

WAIT = 10
ACTOR = "treasurer-1"


@pytest.fixture
def runner(memory_store, invoices, clock, tmp_path):
    runner = build_job_runner(memory_store, invoices, tmp_path / "out", clock=clock)
    yield runner
    runner.shutdown()


def _run(runner, kind, parameters=None):
    job = runner.submit(kind, parameters, actor_id=ACTOR)
    return runner.wait(job.id, WAIT)


class TestRegistry:
    def test_default_kinds(self):
        assert default_task_registry().list_tasks() == (
            "ap.overdue_sweep",
            "audit.package",
            "csv.export.invoices",
            "csv.import.payments",
        )

    def test_job_store_matches_ledger_store(self, memory_store, sql_store):
        assert isinstance(job_store_for(memory_store), InMemoryJobStore)
        assert isinstance(job_store_for(sql_store), SqlJobStore)

    def test_duplicate_registration_rejected(self):
        registry = default_task_registry()
        with pytest.raises(ValueError):
            registry.register(registry.get("audit.package"))

    def test_unknown_kind_lookup(self):
        with pytest.raises(KeyError):
            default_task_registry().get("nope")


class TestInvoiceExport:
    def test_writes_one_row_per_invoice(self, runner, ledger, invoices):
        first = ledger.approved_invoice("1000")
        second = ledger.approved_invoice("250.50")
        invoices.pay(first.id, "400", None, "CASH", ACTOR)

        done = _run(runner, "csv.export.invoices")

        assert done.status == JobStatus.COMPLETED
        assert done.succeeded_items == 2
        with open(done.output_ref, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            assert tuple(reader.fieldnames) == INVOICE_EXPORT_COLUMNS
            rows = {row["invoice_id"]: row for row in reader}

        assert rows[str(first.id)]["paid_amount"] == "400"
        assert rows[str(first.id)]["remaining_balance"] == "600"
        assert rows[str(first.id)]["payment_status"] == "PARTIAL"
        assert rows[str(first.id)]["approved_for_payment"] == "true"
        assert rows[str(second.id)]["total_amount"] == "250.5"
        assert rows[str(second.id)]["price_variance"] == ""

    def test_selected_invoices_and_output_name(self, runner, ledger):
        wanted = ledger.approved_invoice("10")
        ledger.approved_invoice("20")
        done = _run(
            runner, "csv.export.invoices",
            {"invoice_ids": [str(wanted.id)], "output_name": "wanted.csv"},
        )
        assert done.output_ref.endswith("wanted.csv")
        with open(done.output_ref, newline="", encoding="utf-8") as f:
            assert [row["invoice_id"] for row in csv.DictReader(f)] == [str(wanted.id)]

    def test_unknown_invoice_is_item_failure(self, runner, ledger):
        ledger.approved_invoice("10")
        done = _run(runner, "csv.export.invoices", {"invoice_ids": [str(uuid4())]})
        assert done.status == JobStatus.FAILED
        assert done.item_errors[0].error_code == "NOT_FOUND"


class TestPaymentImport:
    def _write(self, path, rows, header=("invoice_id", "amount", "payment_date", "method", "reference")):
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            writer.writerows(rows)
        return str(path)

    def test_applies_payments_and_records_row_failures(self, runner, ledger, invoices, tmp_path):
        first = ledger.approved_invoice("1000")
        second = ledger.approved_invoice("50")
        source = self._write(tmp_path / "payments.csv", [
            [str(first.id), "400", "2024-01-12", "CHEQUE", "CHQ-001"],
            [str(first.id), "600", "", "", ""],
            [str(second.id), "75", "", "CASH", ""],
            ["not-a-uuid", "10", "", "", ""],
        ])

        done = _run(runner, "csv.import.payments", {"path": source})

        assert done.status == JobStatus.FAILED
        assert done.total_items == 4
        assert done.succeeded_items == 2
        assert done.failed_items == 2
        errors = {e.item_key: e.error_code for e in done.item_errors}
        assert errors == {"row-4": "OVERPAYMENT", "row-5": "VALIDATION_ERROR"}

        assert invoices.get(first.id).payment_status == PaymentStatus.PAID
        payments = invoices.payments_for(first.id)
        assert payments[0].payment_date == date(2024, 1, 12)
        assert payments[0].reference == "CHQ-001"
        assert payments[1].method.value == "BANK_TRANSFER"
        assert all(p.recorded_by == ACTOR for p in payments)
        assert invoices.get(second.id).paid_amount == Decimal("0")

    def test_missing_columns_fail_the_job(self, runner, tmp_path):
        source = self._write(tmp_path / "bad.csv", [["x"]], header=("invoice",))
        done = _run(runner, "csv.import.payments", {"path": source})
        assert done.status == JobStatus.FAILED
        assert "missing columns: invoice_id, amount" in done.error_message

    def test_path_required(self, runner):
        done = _run(runner, "csv.import.payments", {})
        assert done.status == JobStatus.FAILED
        assert done.error_message.startswith("prepare_items failed")

    def test_semicolon_delimiter_and_bom(self, runner, ledger, invoices, tmp_path):
        invoice = ledger.approved_invoice("100")
        path = tmp_path / "bom.csv"
        path.write_text(f"\ufeffinvoice_id;amount\n{invoice.id};100\n", encoding="utf-8")
        done = _run(runner, "csv.import.payments", {"path": str(path), "delimiter": ";"})
        assert done.status == JobStatus.COMPLETED
        assert invoices.get(invoice.id).is_fully_paid


class TestAuditPackage:
    def test_archive_with_manifest(self, runner, ledger, invoices, receiving, clock):
        line = ledger.po_line(quantity="100", unit_price="10.00")
        grn = ledger.grn((line, "100"))
        receiving.accept_lines(
            grn.id,
            [{"goods_receipt_item_id": grn.items[0].id, "accepted_quantity": "100", "rejected_quantity": "0"}],
            "storekeeper-1",
        )
        invoice = ledger.invoice((line, "100", "10.00"), link_order=True)
        invoices.match(invoice.id, "2", "clerk-1")
        invoices.approve(invoice.id, "approver-1")
        invoices.pay(invoice.id, "250.75", None, "CASH", ACTOR)

        done = _run(runner, "audit.package")

        assert done.status == JobStatus.COMPLETED
        with zipfile.ZipFile(done.output_ref) as archive:
            manifest = json.loads(archive.read(MANIFEST_NAME))
            assert manifest["job_id"] == str(done.id)
            assert manifest["generated_by"] == ACTOR
            assert manifest["generated_at"] == clock.now().isoformat()
            assert manifest["document_count"] == 1
            (entry,) = manifest["documents"]
            payload = archive.read(entry["name"])

        assert entry["invoice_id"] == str(invoice.id)
        assert entry["name"] == f"invoices/{invoice.vendor_id}-{invoice.invoice_number}.json"
        assert entry["sha256"] == hashlib.sha256(payload).hexdigest()

        document = json.loads(payload)
        assert document["invoice"]["paid_amount"] == "250.75"
        assert document["invoice"]["remaining_balance"] == "749.25"
        assert document["invoice"]["match_status"] == "MATCHED"
        assert [p["amount"] for p in document["payments"]] == ["250.75"]
        assert [line_doc["id"] for line_doc in document["purchase_order_lines"]] == [str(line.id)]
        (receipt,) = document["goods_receipts"]
        assert receipt["status"] == "ACCEPTED"
        assert receipt["total_accepted"] == "100"


class TestOverdueSweep:
    def test_marks_past_due_invoices(self, runner, ledger, clock, today, invoices):
        late = ledger.approved_invoice("100", due_date=today + timedelta(days=1))
        on_time = ledger.approved_invoice("100", due_date=today + timedelta(days=30))
        paid = ledger.approved_invoice("100", due_date=today)
        invoices.pay(paid.id, "100", None, "CASH", ACTOR)
        clock.advance(days=2)

        done = _run(runner, "ap.overdue_sweep")

        assert done.status == JobStatus.COMPLETED
        assert done.total_items == 2
        assert done.succeeded_items == 1
        assert done.skipped_items == 1
        assert invoices.get(late.id).payment_status == PaymentStatus.OVERDUE
        assert invoices.get(on_time.id).payment_status == PaymentStatus.PENDING
        assert invoices.get(paid.id).payment_status == PaymentStatus.PAID
