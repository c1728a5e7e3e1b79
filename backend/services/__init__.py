"""FireLog service layer"""
