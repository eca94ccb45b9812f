"""
Inventory module

MAIN ENTITIES:
- StockLedgerEntry: append-only record of every stock change (sale, purchase,
  customer_return, supplier_return, adjustment) with before/after snapshot,
  counterparty and actor
- StockReservation: units held by an open POS order

BUSINESS RULES:
- Product.stock only changes together with a ledger entry
- new_stock = previous_stock + quantity on every entry; entries are immutable
- Replaying a product's ledger from zero gives its current stock
- Stock never goes below zero nor below what open carts hold
- Reservations are conditional single-statement updates (no oversell)
"""
