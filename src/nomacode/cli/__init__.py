"""Nomacode command line interface"""
