"""
Order services package.

Contains the order service used by the HTTP layer and the validators
applied before every write to the order store.
"""
