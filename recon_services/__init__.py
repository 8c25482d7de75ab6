"""
recon_services -- Orchestration over the ledger modules.

``core.ReconciliationCore`` is the operation surface handed to the outer
layer; ``authorization`` and ``serialization`` are its boundary helpers.
"""
