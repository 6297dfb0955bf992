"""USSD bus ticketing service"""
