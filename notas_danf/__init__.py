"""Leitor de DANF: captura, armazenamento e download de notas fiscais."""

__version__ = "1.0.0"
