"""HTTP API маркетплейса: аутентификация и поиск исполнителей."""
