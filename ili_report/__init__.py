"""ili_report package initializer.

This package contains the data pipeline behind the Taiwan influenza-like
illness (ILI) incidence report.  Modules include data loading, case
aggregation, rate computation, plotting helpers and the HTML report
writer.  See individual module docstrings for details.
"""
