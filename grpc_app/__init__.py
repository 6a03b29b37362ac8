"""gRPC transport layer for the application.

This package hosts the client side only:
- `client.GrpcTransportFactory` builds a transport from settings (TLS, channel options).
- `client.GrpcTransport` resolves instances through the service registry and
  caches one `grpc.aio` channel per target.
"""
