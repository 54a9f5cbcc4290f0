"""Сервисы напоминаний: хранилище, правила, доставка, планировщик"""
