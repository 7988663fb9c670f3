"""
Pytest configuration for sheet_config. Point file settings at paths that do not exist
so no test reads real credentials; tests inject their own stores and secrets.
"""
import os

os.environ["SHEET_CONFIG_CREDENTIALS_FILE"] = "/nonexistent/sheet-config-tests/credentials.json"
os.environ["SHEET_CONFIG_TOKEN_FILE"] = "/nonexistent/sheet-config-tests/token.json"
os.environ["SHEET_CONFIG_SPREADSHEET_ID"] = "test-spreadsheet"
os.environ["SHEET_CONFIG_CACHE_ENABLED"] = "true"
