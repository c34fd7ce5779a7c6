"""Nomacode backend: FastAPI service hosting terminal sessions"""
