"""
Flex.IA backend package
"""
