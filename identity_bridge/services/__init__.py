"""
Services - clients for systems outside the bridge.
"""
