"""Message interception: request context, interceptor chains, rate limiting and audit logging."""