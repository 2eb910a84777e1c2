"""bnsresolver package"""
