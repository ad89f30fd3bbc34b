"""Eventos de dominio."""
