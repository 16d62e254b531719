"""Socket.IO bridge for progress events"""
