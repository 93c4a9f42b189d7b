"""Countdown arithmetic and timer ownership"""
