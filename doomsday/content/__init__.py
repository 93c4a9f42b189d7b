"""Daily quote, news and chat theme: generation, fallbacks and caching"""
