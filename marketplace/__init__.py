# marketplace/__init__.py
"""
Бэкенд маркетплейса услуг: вход по одноразовому коду и поиск исполнителей рядом.
"""

__version__ = "1.0.0"
