"""
recon_modules -- procurement documents and the workflows that move them.

``procurement`` owns purchase order lines, goods receipts and inspections;
``ap`` owns vendor invoices and payments; ``storage`` defines the ports the
services persist through and the in-memory and SQL adapters behind them.
"""
