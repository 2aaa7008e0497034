"""
Contact module: public inquiries, resolved by admins. Nothing is ever deleted.
"""
