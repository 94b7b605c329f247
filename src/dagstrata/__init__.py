"""Layered DAG layout: ILP layering, exact decrossing, QP coordinates."""

__version__ = "0.3.0"
