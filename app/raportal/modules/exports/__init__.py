"""Spreadsheet (xlsx) exports for superadmins and association presidents."""
