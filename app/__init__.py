"""PingMe — сервис напоминаний"""
