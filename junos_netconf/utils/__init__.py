"""Shared utilities: configuration, errors, logging and cancellation"""
