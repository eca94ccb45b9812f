"""
Returns module

Customer returns put goods back on the shelf (customer_return ledger entry,
stock increases). Supplier returns send goods back (supplier_return ledger
entry, stock decreases and is refused past zero). Every return stores one
ProductReturn row and exactly one ledger entry.
"""
