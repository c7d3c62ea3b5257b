# pos_store test suite
#
# This package contains:
# - Service tests against an in-memory SQLite store (pytest)
# - CLI command tests via Flask's test CLI runner
#
# Run with: python -m pytest [-m products|inventory|sales|schema]
