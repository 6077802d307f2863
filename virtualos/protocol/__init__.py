"""Modbus RTU helpers and a slave over a user-supplied serial port."""