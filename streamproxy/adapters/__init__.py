"""Host adapters mapping native request/response objects onto ProxyHandler."""
