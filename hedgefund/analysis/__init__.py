"""Market analysis: indicators and multi-strategy scoring"""
