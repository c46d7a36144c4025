"""Lending module contracts and chain state reads."""
