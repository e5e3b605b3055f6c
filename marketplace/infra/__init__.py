# marketplace/infra/__init__.py
"""
Инфраструктурный слой: PostgreSQL и Redis.
"""
