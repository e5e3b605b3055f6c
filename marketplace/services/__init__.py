"""HTTP-сервисы."""
