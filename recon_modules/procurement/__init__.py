"""
Procurement Module (``recon_modules.procurement``).

Responsibility
--------------
Goods receipt notes against purchase orders: inspection history, per-line
acceptance and rejection, and the GRN status machine.  Purchase order
lines are reference data owned by the surrounding application.

Architecture position
---------------------
**Modules layer** -- frozen models, ORM mapping, workflow definition and
``ReceivingService``.  Quantity reconciliation is delegated to
``recon_engines.acceptance``.
"""
