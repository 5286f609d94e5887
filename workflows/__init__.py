"""
Scheduled Prefect flows
"""
