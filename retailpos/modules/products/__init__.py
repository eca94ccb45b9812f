"""
Products module: catalog with the live inventory counter (stock, reserved,
available) and low-stock reporting.
"""
