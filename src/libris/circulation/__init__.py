"""Lending and reservation scheduling for a multi-copy catalog."""
