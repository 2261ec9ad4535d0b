"""Persistence implementations"""
