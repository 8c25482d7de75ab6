"""
recon_kernel -- shared foundation for the procurement reconciliation core.

Exceptions, structured logging, the injectable clock, decimal helpers,
per-entity locks and the SQLAlchemy base live here.  Nothing in this
package imports from engines, modules, batch or services.
"""
