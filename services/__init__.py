"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- round_policy_service：回合角色與存取權規則
- priority_service：配對優先權計算
"""
