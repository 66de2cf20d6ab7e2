"""Dashboard API: statistics, audit queries, analytics and the WSGI application."""