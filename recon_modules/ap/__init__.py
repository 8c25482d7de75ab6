"""
Accounts Payable Module (``recon_modules.ap``).

Responsibility
--------------
Vendor invoices from entry to settlement: matching against purchase order
lines (and, optionally, accepted receipts), approval, dispute annotation,
voiding, and partial or full payment.

Architecture position
---------------------
**Modules layer** -- frozen models, ORM mapping, workflow definitions and
``InvoiceService``.  Calculation is delegated to ``recon_engines``
(matching, settlement); persistence goes through the storage ports.

Invariants enforced
-------------------
* paid_amount never exceeds total_amount.
* Every mutation of an invoice runs under its entity lock inside one unit
  of work.
"""
