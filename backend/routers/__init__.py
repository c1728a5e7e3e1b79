"""FireLog API routers"""
