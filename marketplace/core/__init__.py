# marketplace/core/__init__.py
"""
Доменный слой (Core Domain): вход по одноразовому коду и поиск исполнителей.
"""
