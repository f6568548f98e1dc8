"""HTTP API for receiptflow."""
