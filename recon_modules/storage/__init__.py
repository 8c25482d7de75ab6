"""
Storage ports (``recon_modules.storage.ports``) and the adapters behind
them: ``memory.InMemoryLedgerStore`` and ``sql.SqlLedgerStore``.
"""
