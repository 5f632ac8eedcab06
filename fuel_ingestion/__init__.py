"""
fuel_ingestion -- Classification of decoded legacy fuel logs.

Turns already-decoded spreadsheet rows into typed fuel transactions while
keeping every row traceable to its source position. File decoding happens
upstream; nothing in kernel/ or engines/ imports from ingestion.
"""
