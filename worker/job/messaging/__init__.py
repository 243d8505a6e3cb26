"""customer-messaging 큐 핸들러"""
