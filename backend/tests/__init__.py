"""
Test suite for the order engine backend.

Test categories:
- Unit tests: pure logic and services against in-memory fakes
- Integration tests: SqlOrderStore against in-memory SQLite
- API tests: Full FastAPI app through httpx ASGITransport
"""
