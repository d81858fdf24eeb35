"""Machlog: учёт техники, QR-метки и осмотры по чек-листу."""
